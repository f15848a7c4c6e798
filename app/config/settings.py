from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the drive sync service."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Drive Vector Sync"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Mirrors a cloud drive's documents into a Pinecone vector index"
    LOG_LEVEL: str = "INFO"
    LOGS_DIR: str = "logs"

    DATABASE_URL: str = ""
    LOCAL_SQLITE_PATH: str = "sqlite+aiosqlite:///./local.db"

    # Partition of the file_sync table owned by this deployment
    AGENT_ID: int = 1

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """Resolve the database URL for the sync state store.

        Priority:
        1. Explicit DATABASE_URL (Postgres, SQLite, etc.)
        2. Local SQLite fallback for development: LOCAL_SQLITE_PATH
        """
        if self.DATABASE_URL and self.DATABASE_URL.strip():
            return self.DATABASE_URL.strip()
        if self.LOCAL_SQLITE_PATH and self.LOCAL_SQLITE_PATH.strip():
            return self.LOCAL_SQLITE_PATH.strip()
        return "sqlite+aiosqlite:///./local.db"

    # OpenAI embedding settings
    OPENAI_API_KEY: str = ""
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_BATCH_SIZE: int = Field(default=16, ge=1)

    # Pinecone / vector store settings
    PINECONE_API_KEY: str = ""
    PINECONE_INDEX_NAME: str = "drive-docs"
    PINECONE_NAMESPACE: str = ""
    PINECONE_REGION: str = "us-east-1"

    # Microsoft Graph (SharePoint / OneDrive) settings
    GRAPH_TENANT_ID: str = Field(default="", description="Azure AD tenant id")
    GRAPH_CLIENT_ID: str = Field(default="", description="App registration client id")
    GRAPH_CLIENT_SECRET: str = Field(default="", description="App registration client secret")
    GRAPH_DRIVE_ID: str = Field(default="", description="Drive (document library) to mirror")
    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_AUTHORITY_URL: str = "https://login.microsoftonline.com"

    # Chunking settings
    CHUNK_MAX_WORDS: int = Field(default=400, ge=1)
    CHUNK_OVERLAP: int = Field(default=50, ge=0)
    CHUNK_MAX_TOKENS: int = Field(default=8192, ge=1)

    # Applied to every outbound network call
    REQUEST_TIMEOUT_SECONDS: float = 60.0


settings = Settings()
