from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    root_path: str = ""
    log_level: str = "INFO"
    internal_admin_token: str = "change-me"

    # Remote family directory (managed record store)
    directory_mode: str = "memory"  # memory | http
    directory_base_url: str = "http://directory:8080/v1"
    directory_container_id: str = "familycar"
    directory_api_token: str = ""
    directory_timeout_seconds: float = 30.0
    directory_page_size: int = 200
    member_record_type: str = "FamilyMember"

    default_member_name: str = "Family Member"
    invite_base_url: str = "https://familycar.app/invite"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FAMILYSYNC_", extra="ignore")

    @property
    def directory_container_url(self) -> str:
        return f"{self.directory_base_url.rstrip('/')}/containers/{self.directory_container_id}"


settings = Settings()
