from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, Numeric, String
from sqlmodel import SQLModel

from app.models.base.base_model import legacy_column


class MeterInfo(SQLModel, table=True):
    """
    CMO 现场换表记录 (FieldRecord)。

    表属于外部 SQL Server 库，所有日期列都是 VARCHAR(50)，
    内容固定为 ``YYYY-MM-DD HH:mm:ss.mmm``，写入前统一经过 format_date_for_sql_server。
    Has* / Is* 标志位都是 0/1 整数列。
    """
    __tablename__ = "MeterInfo"

    id: Optional[int] = legacy_column("Id", Integer, primary_key=True, autoincrement=True)

    # --- 客户与位置 ---
    customer_id: Optional[str] = legacy_column("CustomerId", String(50), index=True)
    old_consumer_id: Optional[str] = legacy_column("OldConsumerId", String(50), index=True)
    install_date: Optional[str] = legacy_column("InstallDate", String(50))
    latitude: Optional[Decimal] = legacy_column("Latitude", Numeric(18, 10))
    longitude: Optional[Decimal] = legacy_column("Longitude", Numeric(18, 10))

    # --- 旧表 ---
    has_old_meter_no: Optional[int] = legacy_column("HasOldMeterNo", Integer, default=0)
    old_meter_no_img_url: Optional[str] = legacy_column("OldMeterNoImgUrl", String(500))
    old_meter_no_ocr: Optional[str] = legacy_column("OldMeterNoOCR", String(100))
    old_meter_no_old: Optional[str] = legacy_column("OldMeterNoOld", String(100))
    has_old_meter_reading: Optional[int] = legacy_column("HasOldMeterReading", Integer, default=0)
    old_meter_reading_img_url: Optional[str] = legacy_column("OldMeterReadingImgUrl", String(500))
    old_meter_reading_ocr: Optional[str] = legacy_column("OldMeterReadingOCR", String(100))
    old_meter_reading_old: Optional[str] = legacy_column("OldMeterReadingOld", String(100))
    old_meter_peak: Optional[str] = legacy_column("OldMeterPeak", String(50))
    old_meter_off_peak: Optional[str] = legacy_column("OldMeterOffPeak", String(50))
    old_meter_kvar: Optional[str] = legacy_column("OldMeterKVAR", String(50))

    # --- 新表 ---
    has_new_meter_no: Optional[int] = legacy_column("HasNewMeterNo", Integer, default=0)
    new_meter_no_img_url: Optional[str] = legacy_column("NewMeterNoImgUrl", String(500))
    new_meter_no_ocr: Optional[str] = legacy_column("NewMeterNoOCR", String(100))
    new_meter_no_old: Optional[str] = legacy_column("NewMeterNoOld", String(100))
    is_new_meter_duplicate: Optional[int] = legacy_column("IsNewMeterDuplicate", Integer, default=0)
    new_meter_type: Optional[str] = legacy_column("NewMeterType", String(20))
    new_meter_billing_type: Optional[str] = legacy_column("NewMeterBillingType", String(50))
    new_meter_connection_type: Optional[str] = legacy_column("NewMeterConnectionType", String(50))

    # --- 线材 ---
    is_pvc_wire_install: Optional[int] = legacy_column("IsPVCWireInstall", Integer, default=0)
    pvc_wire_spec: Optional[str] = legacy_column("PVCWireSpec", String(50))
    pvc_wire_length: Optional[str] = legacy_column("PVCWireLength", String(50))

    # --- 封印 ---
    has_battery_cover_seal: Optional[int] = legacy_column("HasBatteryCoverSeal", Integer, default=0)
    battery_cover_seal_img_url: Optional[str] = legacy_column("BatteryCoverSealImgUrl", String(500))
    battery_cover_seal_ocr: Optional[str] = legacy_column("BatteryCoverSealOCR", String(100))
    battery_cover_seal_old: Optional[str] = legacy_column("BatteryCoverSealOld", String(100))
    has_terminal_cover_seal1: Optional[int] = legacy_column("HasTerminalCoverSeal1", Integer, default=0)
    terminal_cover_seal_img_url1: Optional[str] = legacy_column("TerminalCoverSealImgUrl1", String(500))
    terminal_cover_seal_ocr1: Optional[str] = legacy_column("TerminalCoverSealOCR1", String(100))
    terminal_cover_seal_old1: Optional[str] = legacy_column("TerminalCoverSealOld1", String(100))
    has_terminal_cover_seal2: Optional[int] = legacy_column("HasTerminalCoverSeal2", Integer, default=0)
    terminal_cover_seal_img_url2: Optional[str] = legacy_column("TerminalCoverSealImgUrl2", String(500))
    terminal_cover_seal_ocr2: Optional[str] = legacy_column("TerminalCoverSealOCR2", String(100))
    terminal_cover_seal_old2: Optional[str] = legacy_column("TerminalCoverSealOld2", String(100))

    # --- 钢箱 ---
    has_steel_box: Optional[int] = legacy_column("HasSteelBox", Integer, default=0)
    is_steel_box_remove: Optional[int] = legacy_column("IsSteelBoxRemove", Integer, default=0)
    steel_box_remove_url: Optional[str] = legacy_column("SteelBoxRemoveUrl", String(500))

    # --- 流程 ---
    meter_installed_by: Optional[str] = legacy_column("MeterInstalledBy", String(100))
    has_revisit: Optional[int] = legacy_column("HasRevisit", Integer, default=0)
    revisit_dt: Optional[str] = legacy_column("RevisitDt", String(50))
    rectify_status: Optional[str] = legacy_column("RectifyStatus", String(50))
    rectify_message: Optional[str] = legacy_column("RectifyMessage", String(500))
    is_approved: Optional[int] = legacy_column("IsApproved", Integer, default=0)
    approved_by: Optional[int] = legacy_column("ApprovedBy", Integer)
    approved_date: Optional[str] = legacy_column("ApprovedDate", String(50))
    is_mdm_entry: Optional[int] = legacy_column("IsMDMEntry", Integer, default=0)
    is_apps_entry: Optional[int] = legacy_column("IsAppsEntry", Integer, default=1)
    is_active: Optional[int] = legacy_column("IsActive", Integer, default=1, index=True)

    # --- 审计 ---
    create_by: Optional[int] = legacy_column("CreateBy", Integer)
    create_date: Optional[str] = legacy_column("CreateDate", String(50))
    update_by: Optional[int] = legacy_column("UpdateBy", Integer)
    update_date: Optional[str] = legacy_column("UpdateDate", String(50))
