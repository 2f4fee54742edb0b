# app/models/__init__.py

# === APK 版本 ===
from app.models.app_version.app_version import AppVersion

# === CMO 换表记录 ===
from app.models.meter.meter_info import MeterInfo

__all__ = ["AppVersion", "MeterInfo"]

# === ORM 事件 (UpdatedAt 自动刷新) ===
from app.models._model_utils import listener  # noqa: E402,F401
