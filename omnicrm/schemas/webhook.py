from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, Dict, Union

class GatewayWebhookSchema(BaseModel):
    """Messaging gateway webhook body."""
    model_config = ConfigDict(extra='allow')

    event: str
    instance: str
    data: Any = Field(default_factory=dict)
    date_time: Optional[str] = None
    server_url: Optional[str] = None
    apikey: Optional[str] = None

class ErpWebhookSchema(BaseModel):
    model_config = ConfigDict(extra='allow')

    event: str
    order_id: Union[int, str]
    status_id: Optional[Union[int, str]] = None
    log_id: Optional[Union[int, str]] = None
    data: Optional[Dict[str, Any]] = None
