from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Goal Vault API"
    database_url: str = ""
    jwt_secret_key: str
    jwt_algorithm: str
    log_level: str = "INFO"

    # Accounts that receive value outside of goal owners.
    admin_account: str = "admin"
    donation_recipient: str = "donation-sink"
    reward_pool_account: str = "reward-pool"
    treasury_account: str = "treasury"

    # Comma-separated currency codes; each gets a Lite and a Pro vault.
    supported_currencies: str = "USDC,DAI"
    min_goal_duration_seconds: int = 7 * 24 * 60 * 60
    early_withdrawal_penalty_bps: int = 200

    # Annual rates of the simulated reserves, in basis points.
    lite_reserve_rate_bps: int = 350
    pro_reserve_rate_bps: int = 800

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def currency_list(self) -> list[str]:
        return [code.strip().upper() for code in self.supported_currencies.split(",") if code.strip()]


settings = Settings()
