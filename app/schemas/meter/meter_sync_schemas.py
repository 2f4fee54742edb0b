from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.enums.upload_enums import SyncRecordStatus


def _col(alias: str, **kwargs):
    return Field(None, alias=alias, **kwargs)


class MeterInfoSyncItem(BaseModel):
    """
    移动端离线采集的一条 CMO 记录。

    键名沿用 App 端的 PascalCase (与 MeterInfo 列名一致)，字段名与 ORM 属性一一对应，
    所以 model_dump 的结果可以直接交给仓储。
    CreateBy / UpdateBy / IsActive 这类审计字段不接受客户端传值，未声明的键一律忽略。
    """
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")

    # --- 客户端本地标识，只用于回执，不落库 ---
    local_id: Optional[Union[int, str]] = _col("LocalId")
    meter_index: Optional[int] = _col("MeterIndex")

    # --- 客户与位置 ---
    customer_id: str = Field(..., alias="CustomerId", min_length=1, max_length=50)
    old_consumer_id: Optional[str] = _col("OldConsumerId", max_length=50)
    install_date: Optional[Any] = _col("InstallDate")
    latitude: Optional[Decimal] = _col("Latitude")
    longitude: Optional[Decimal] = _col("Longitude")

    # --- 旧表 ---
    has_old_meter_no: Optional[int] = _col("HasOldMeterNo")
    old_meter_no_img_url: Optional[str] = _col("OldMeterNoImgUrl", max_length=500)
    old_meter_no_ocr: Optional[str] = _col("OldMeterNoOCR", max_length=100)
    old_meter_no_old: Optional[str] = _col("OldMeterNoOld", max_length=100)
    has_old_meter_reading: Optional[int] = _col("HasOldMeterReading")
    old_meter_reading_img_url: Optional[str] = _col("OldMeterReadingImgUrl", max_length=500)
    old_meter_reading_ocr: Optional[str] = _col("OldMeterReadingOCR", max_length=100)
    old_meter_reading_old: Optional[str] = _col("OldMeterReadingOld", max_length=100)
    old_meter_peak: Optional[str] = _col("OldMeterPeak", max_length=50)
    old_meter_off_peak: Optional[str] = _col("OldMeterOffPeak", max_length=50)
    old_meter_kvar: Optional[str] = _col("OldMeterKVAR", max_length=50)

    # --- 新表 ---
    has_new_meter_no: Optional[int] = _col("HasNewMeterNo")
    new_meter_no_img_url: Optional[str] = _col("NewMeterNoImgUrl", max_length=500)
    new_meter_no_ocr: Optional[str] = _col("NewMeterNoOCR", max_length=100)
    new_meter_no_old: Optional[str] = _col("NewMeterNoOld", max_length=100)
    is_new_meter_duplicate: Optional[int] = _col("IsNewMeterDuplicate")
    new_meter_type: Optional[str] = _col("NewMeterType", max_length=20)
    new_meter_billing_type: Optional[str] = _col("NewMeterBillingType", max_length=50)
    new_meter_connection_type: Optional[str] = _col("NewMeterConnectionType", max_length=50)

    # --- 线材 ---
    is_pvc_wire_install: Optional[int] = _col("IsPVCWireInstall")
    pvc_wire_spec: Optional[str] = _col("PVCWireSpec", max_length=50)
    pvc_wire_length: Optional[str] = _col("PVCWireLength", max_length=50)

    # --- 封印 ---
    has_battery_cover_seal: Optional[int] = _col("HasBatteryCoverSeal")
    battery_cover_seal_img_url: Optional[str] = _col("BatteryCoverSealImgUrl", max_length=500)
    battery_cover_seal_ocr: Optional[str] = _col("BatteryCoverSealOCR", max_length=100)
    battery_cover_seal_old: Optional[str] = _col("BatteryCoverSealOld", max_length=100)
    has_terminal_cover_seal1: Optional[int] = _col("HasTerminalCoverSeal1")
    terminal_cover_seal_img_url1: Optional[str] = _col("TerminalCoverSealImgUrl1", max_length=500)
    terminal_cover_seal_ocr1: Optional[str] = _col("TerminalCoverSealOCR1", max_length=100)
    terminal_cover_seal_old1: Optional[str] = _col("TerminalCoverSealOld1", max_length=100)
    has_terminal_cover_seal2: Optional[int] = _col("HasTerminalCoverSeal2")
    terminal_cover_seal_img_url2: Optional[str] = _col("TerminalCoverSealImgUrl2", max_length=500)
    terminal_cover_seal_ocr2: Optional[str] = _col("TerminalCoverSealOCR2", max_length=100)
    terminal_cover_seal_old2: Optional[str] = _col("TerminalCoverSealOld2", max_length=100)

    # --- 钢箱 ---
    has_steel_box: Optional[int] = _col("HasSteelBox")
    is_steel_box_remove: Optional[int] = _col("IsSteelBoxRemove")
    steel_box_remove_url: Optional[str] = _col("SteelBoxRemoveUrl", max_length=500)

    # --- 流程 ---
    meter_installed_by: Optional[str] = _col("MeterInstalledBy", max_length=100)
    has_revisit: Optional[int] = _col("HasRevisit")
    revisit_dt: Optional[Any] = _col("RevisitDt")
    rectify_status: Optional[str] = _col("RectifyStatus", max_length=50)
    rectify_message: Optional[str] = _col("RectifyMessage", max_length=500)
    is_approved: Optional[int] = _col("IsApproved")
    approved_by: Optional[int] = _col("ApprovedBy")
    approved_date: Optional[Any] = _col("ApprovedDate")
    is_mdm_entry: Optional[int] = _col("IsMDMEntry")

    def column_values(self) -> dict:
        """客户端实际传了的列 (不含 LocalId / MeterIndex)。"""
        return self.model_dump(exclude_unset=True, exclude={"local_id", "meter_index"})


# 插入时缺省补 0 的标志位
METER_FLAG_FIELDS = (
    "has_old_meter_no",
    "has_old_meter_reading",
    "has_new_meter_no",
    "is_new_meter_duplicate",
    "is_pvc_wire_install",
    "has_battery_cover_seal",
    "has_terminal_cover_seal1",
    "has_terminal_cover_seal2",
    "has_steel_box",
    "is_steel_box_remove",
    "has_revisit",
    "is_approved",
    "is_mdm_entry",
)

METER_DATE_FIELDS = ("install_date", "revisit_dt", "approved_date")


class BulkSyncRequest(BaseModel):
    """
    一栋楼的一批 CMO。楼栋级的经纬度 / 安装人在单条记录没填时作为默认值。
    CMOs 保持原始 dict，逐条校验，单条格式错误不影响整批。
    """
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    bulk_group_id: Optional[str] = Field(None, alias="bulkGroupId")
    building_name: Optional[str] = Field(None, alias="buildingName")
    building_address: Optional[str] = Field(None, alias="buildingAddress")
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None
    feeder: Optional[str] = None
    install_by: Optional[str] = Field(None, alias="installBy")
    cmos: Optional[List[Any]] = Field(None, alias="CMOs")


class BulkSyncSuccessItem(BaseModel):
    local_id: Optional[Union[int, str]] = None
    server_id: int
    customer_id: Optional[str] = None
    meter_index: Optional[int] = None
    status: SyncRecordStatus


class BulkSyncFailedItem(BaseModel):
    # 原样回传客户端的标识，记录本身可能就是格式错误的
    local_id: Optional[Any] = None
    customer_id: Optional[Any] = None
    meter_index: Optional[Any] = None
    error: str


class BulkSyncResult(BaseModel):
    bulk_group_id: str
    building_name: Optional[str] = None
    total_count: int
    success_count: int = 0
    failed_count: int = 0
    success: List[BulkSyncSuccessItem] = Field(default_factory=list)
    failed: List[BulkSyncFailedItem] = Field(default_factory=list)


class BulkSyncStats(BaseModel):
    total_records: int
    today_records: int
