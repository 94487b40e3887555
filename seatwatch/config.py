"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Databricks SQL warehouse
    databricks_host: str = "adb-984752964297111.11.azuredatabricks.net"
    databricks_token: str = ""
    warehouse_id: str = "148ccb90800933a1"
    query_wait_timeout: str = "30s"
    query_request_timeout_seconds: float = 60.0
    query_poll_timeout_seconds: float = 10.0
    query_poll_attempts: int = 30
    query_poll_interval_seconds: float = 1.0

    # Source tables
    anomaly_table: str = "mc.amadeus2.anomaly_updates"
    iata_table: str = "mc.amadeus2.iata"
    flights_table: str = "mc.amadeus2.data_full"

    # Model serving
    model_endpoint_name: str = "flight-seat-anomaly-detector"
    inference_timeout_seconds: float = 30.0
    inference_batch_size: int = 0  # 0 = one batch covering every row
    inter_batch_delay_seconds: float = 0.5
    fallback_threshold: float = 300.0

    # Pipeline waits (cooperative cancellation points)
    inference_warmup_seconds: float = 0.0
    finalize_delay_seconds: float = 0.0

    # Job processing
    job_retention_seconds: float = 300.0
    max_concurrent_jobs: int = 4

    # Service
    service_port: int = 8000
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"
    cors_origins: List[str] = ["http://localhost:4200", "http://localhost:8000", "*"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "protected_namespaces": ()}

    @property
    def databricks_base_url(self) -> str:
        host = self.databricks_host.strip().rstrip("/")
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix):]
        return f"https://{host}"


settings = Settings()
