# models.py
import time
from enum import Enum
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Standardwerte, wenn die Konfiguration nichts vorgibt
DEFAULT_LEASE_RENEWAL_INTERVAL = 30
DEFAULT_LEASE_DURATION = 90
DEFAULT_HOST_NAME = "localhost"
DEFAULT_DATA_CENTER_INFO_CLASS = "com.netflix.appinfo.InstanceInfo$DefaultDataCenterInfo"
DEFAULT_DATA_CENTER_INFO_NAME = "MyOwn"

APPLICATION_JSON = "application/json"
APPLICATION_XML = "application/xml"


def current_millis() -> int:
    return int(time.time() * 1000)


class InstanceStatus(str, Enum):
    UP = "UP"                          # bereit für Traffic
    DOWN = "DOWN"                      # Healthcheck fehlgeschlagen
    STARTING = "STARTING"              # Initialisierung läuft noch
    OUT_OF_SERVICE = "OUT_OF_SERVICE"  # absichtlich aus dem Traffic genommen
    UNKNOWN = "UNKNOWN"


class ClientConfig(BaseModel):
    appName: str = ""
    instanceId: str = ""
    serviceUrls: List[str] = []
    registerWithEureka: bool = True
    port: int = 0
    securePort: int = 443
    sslPreferred: bool = False
    hostName: str = ""
    ipAddr: str = ""
    renewalIntervalInSecs: int = 0
    durationInSecs: int = 0
    headerContentType: str = ""
    username: Optional[str] = None
    password: Optional[str] = None
    healthEndpointPath: str = "/health"
    infoEndpointPath: str = "/info"
    dataCenterInfoName: str = DEFAULT_DATA_CENTER_INFO_NAME

    def is_json_content_type(self) -> bool:
        return self.headerContentType == "" or "JSON" in self.headerContentType.upper()


class EurekaModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class PortInfo(EurekaModel):
    port: int = Field(0, alias="$")
    enabled: bool = Field(True, alias="@enabled")


class DataCenterInfo(EurekaModel):
    class_name: str = Field(DEFAULT_DATA_CENTER_INFO_CLASS, alias="@class")
    name: str = DEFAULT_DATA_CENTER_INFO_NAME


class LeaseInfo(EurekaModel):
    renewal_interval_in_secs: Optional[int] = Field(None, alias="renewalIntervalInSecs")
    duration_in_secs: Optional[int] = Field(None, alias="durationInSecs")
    registration_timestamp: Optional[int] = Field(None, alias="registrationTimestamp")
    last_renewal_timestamp: Optional[int] = Field(None, alias="lastRenewalTimestamp")
    eviction_timestamp: Optional[int] = Field(None, alias="evictionTimestamp")
    service_up_timestamp: Optional[int] = Field(None, alias="serviceUpTimestamp")


def _as_list(value):
    # XML liefert bei genau einem Element kein Array
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    return value


class InstanceRecord(EurekaModel):
    """
    Die Instanz, wie sie bei Eureka registriert ist.
    is_dirty wird nie serialisiert; es markiert, dass die Kopie in der
    Registry veraltet sein kann.
    """
    envelope: ClassVar[str] = "instance"

    instance_id: Optional[str] = Field(None, alias="instanceId")
    host_name: Optional[str] = Field(None, alias="hostName")
    app: Optional[str] = None
    ip_addr: Optional[str] = Field(None, alias="ipAddr")
    status: Optional[InstanceStatus] = None
    overridden_status: Optional[InstanceStatus] = Field(None, alias="overriddenStatus")
    port: Optional[PortInfo] = None
    secure_port: Optional[PortInfo] = Field(None, alias="securePort")
    country_id: Optional[int] = Field(None, alias="countryId")
    data_center_info: Optional[DataCenterInfo] = Field(None, alias="dataCenterInfo")
    lease_info: Optional[LeaseInfo] = Field(None, alias="leaseInfo")
    metadata: Optional[Dict[str, Optional[str]]] = None
    home_page_url: Optional[str] = Field(None, alias="homePageUrl")
    status_page_url: Optional[str] = Field(None, alias="statusPageUrl")
    health_check_url: Optional[str] = Field(None, alias="healthCheckUrl")
    vip_address: Optional[str] = Field(None, alias="vipAddress")
    secure_vip_address: Optional[str] = Field(None, alias="secureVipAddress")
    is_coordinating_discovery_server: Optional[bool] = Field(None, alias="isCoordinatingDiscoveryServer")
    last_updated_timestamp: Optional[int] = Field(None, alias="lastUpdatedTimestamp")
    last_dirty_timestamp: Optional[int] = Field(None, alias="lastDirtyTimestamp")
    action_type: Optional[str] = Field(None, alias="actionType")

    is_dirty: bool = Field(False, exclude=True)

    def mark_dirty(self) -> int:
        # Zeitstempel muss streng monoton steigen, auch innerhalb derselben Millisekunde
        now = current_millis()
        previous = self.last_dirty_timestamp or 0
        self.last_dirty_timestamp = max(now, previous + 1)
        self.is_dirty = True
        return self.last_dirty_timestamp

    def clear_dirty(self):
        self.is_dirty = False


class ApplicationRecord(EurekaModel):
    envelope: ClassVar[str] = "application"

    name: Optional[str] = None
    instances: List[InstanceRecord] = Field(default_factory=list, alias="instance")

    @field_validator("instances", mode="before")
    @classmethod
    def coerce_instances(cls, value):
        return _as_list(value)


class ApplicationsRecord(EurekaModel):
    envelope: ClassVar[str] = "applications"

    versions_delta: Optional[str] = Field(None, alias="versions__delta")
    apps_hashcode: Optional[str] = Field(None, alias="apps__hashcode")
    applications: List[ApplicationRecord] = Field(default_factory=list, alias="application")

    @field_validator("applications", mode="before")
    @classmethod
    def coerce_applications(cls, value):
        return _as_list(value)

    def get_application(self, name: str) -> Optional[ApplicationRecord]:
        for application in self.applications:
            if application.name and application.name.upper() == name.upper():
                return application
        return None
