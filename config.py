from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "SACCO Loan Application API"
    debug: bool = False
    log_level: str = "INFO"

    sacco_api_url: str = "http://localhost:8000/api"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # 429 handling for calls to the SACCO backend (1s, 2s, 4s)
    request_max_retries: int = 3
    request_retry_base_delay: float = 1.0

    loan_terms_months: str = "3,6,12,18,24,36"
    default_term_months: int = 12
    allocation_epsilon: float = 1e-6
    outstanding_loan_ratio: float = 3.0

    # in-memory workflow retention
    workflow_idle_ttl_seconds: float = 1800.0
    workflow_confirmed_ttl_seconds: float = 300.0
    max_workflows: int = 10000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _permitted_terms: tuple[int, ...] = PrivateAttr(default=())

    def model_post_init(self, __context: object) -> None:
        terms = tuple(sorted({int(t) for t in self.loan_terms_months.split(",") if t.strip()}))
        object.__setattr__(self, "_permitted_terms", terms)

    @property
    def permitted_terms(self) -> tuple[int, ...]:
        return self._permitted_terms


settings = Settings()
