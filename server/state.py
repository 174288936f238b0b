from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from pulse.data.schemas import ProgressUpdate

class SyncProgress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_rescanning: bool = Field(False, alias="isRescanning")
    scan_height: int = Field(0, alias="scanHeight")
    chain_height: int = Field(0, alias="chainHeight")
    progress: float = 0.0
    message: str = ""

    @classmethod
    def from_update(cls, update: ProgressUpdate) -> "SyncProgress":
        return cls(
            is_rescanning=update.is_rescanning,
            scan_height=update.scan_height,
            chain_height=update.chain_height,
            progress=update.progress,
            message=update.message,
        )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)

class RescanRequest(BaseModel):
    begin_height: int = Field(0, validation_alias=AliasChoices("beginHeight", "begin_height"))

class ImportKeyRequest(BaseModel):
    key: str = Field("", validation_alias=AliasChoices("key", "xpub"))
    account_name: str = Field("", validation_alias=AliasChoices("accountName", "account_name"))

class ActionResponse(BaseModel):
    success: bool
    message: str
