from pydantic import BaseModel, Field


class EngineSettings(BaseModel):
    """Tunables of the auction lifecycle and payment cascade."""
    anti_sniping_threshold_seconds: int = Field(default=60, ge=0)
    extension_minutes: int = Field(default=1, gt=0)
    payment_window_minutes: int = Field(default=1, gt=0)
    max_payment_attempts: int = Field(default=3, ge=1)
    auction_monitor_interval_seconds: float = Field(default=10.0, gt=0)
    payment_monitor_interval_seconds: float = Field(default=5.0, gt=0)
