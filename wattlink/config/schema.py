"""Pydantic v2 configuration schema with strict validation."""

from datetime import timedelta

from pydantic import BaseModel, Field


class PlannerConfig(BaseModel):
    model_config = {"extra": "forbid"}

    default_unit_count: int = Field(default=30, ge=1)
    amount_precision: int = Field(default=6, ge=0, le=18)
    conversion_rate: float = Field(default=0.15, gt=0.0)  # credits per sell unit
    sell_unit: str = "USDC"
    buy_unit: str = "CREDIT"


class OracleConfig(BaseModel):
    model_config = {"extra": "forbid"}

    base_url: str = "http://localhost:8780"
    default_oracle_ref: str = "ETH-USD"
    timeout_seconds: float = Field(default=10.0, gt=0.0)
    max_price_age_seconds: int = Field(default=3600, ge=1)


class ScheduleConfig(BaseModel):
    model_config = {"extra": "forbid"}

    minimum_interval_hours: float = Field(default=24.0, ge=0.0)

    @property
    def minimum_interval(self) -> timedelta:
        return timedelta(hours=self.minimum_interval_hours)


class ResolverConfig(BaseModel):
    model_config = {"extra": "forbid"}

    poll_interval_seconds: int = Field(default=60, ge=1)
    max_workers: int = Field(default=1, ge=1, le=32)
    max_backoff_seconds: int = Field(default=600, ge=1)


class ApiConfig(BaseModel):
    model_config = {"extra": "forbid"}

    host: str = "127.0.0.1"
    port: int = Field(default=8777, ge=1, le=65535)


class WattlinkConfig(BaseModel):
    model_config = {"extra": "forbid"}

    planner: PlannerConfig = PlannerConfig()
    oracle: OracleConfig = OracleConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    resolver: ResolverConfig = ResolverConfig()
    api: ApiConfig = ApiConfig()
