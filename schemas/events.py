from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Any, Optional

# Inbound event names
REQUEST_HOST_CREDENTIALS = "request-host-credentials"
RELEASE_HOST_CREDENTIALS = "release-host-credentials"
VERIFY_CONNECTION = "verify-connection"
SIGNAL = "signal"

# Outbound event names
WELCOME = "welcome"
HOST_CREDENTIALS = "host-credentials"
CLIENT_CONNECTED = "client-connected"
HOST_DISCONNECTED = "host-disconnected"
VERIFY_RESULT = "verify-result"
ACK = "ack"
ERROR = "error"


class InboundFrame(BaseModel):
    event: str
    data: Optional[Any] = None
    ack: Optional[int] = None


class HostCredentials(BaseModel):
    session_id: str = Field(serialization_alias="id")
    secret: str = Field(serialization_alias="password")


class VerifyRequest(BaseModel):
    # Clients may send the numeric id as a JSON number
    model_config = ConfigDict(coerce_numbers_to_str=True)

    session_id: str = Field(validation_alias=AliasChoices("id", "sessionId"))
    secret: str = Field(validation_alias=AliasChoices("password", "secret"))


class VerifyResult(BaseModel):
    success: bool
    message: Optional[str] = None


class ClientConnected(BaseModel):
    caller_id: str = Field(serialization_alias="callerId")


class Welcome(BaseModel):
    connection_id: str = Field(serialization_alias="connectionId")


class ErrorPayload(BaseModel):
    message: str
    event: Optional[str] = None
