from datetime import datetime

from sqlalchemy import event
from sqlalchemy.orm import Mapper

from app.models.app_version.app_version import AppVersion


@event.listens_for(AppVersion, "before_update")
def auto_update_updated_at(mapper: Mapper, connection, target: AppVersion):
    # 外部库的 UpdatedAt 是本地时间的 DATETIME
    target.updated_at = datetime.now()
