from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (SQLite by default, no install required)
    database_url: str = "sqlite+aiosqlite:///./carousel.db"
    sql_echo: bool = False

    # Gemini API (slide text generation)
    gemini_api_key: str = ""
    generation_model: str = "gemini-2.5-flash"
    slides_per_carousel: int = 10

    # Local file storage (exported artifacts, archives)
    storage_dir: str = "./data"

    # App
    cors_origins: list[str] = ["http://localhost:3000"]
    debug: bool = True

    # Export surface size (4:5)
    export_width: int = 1080
    export_height: int = 1350

    # Fonts: local TTFs win over downloaded ones
    fonts_dir: str = "./fonts"
    font_cache_dir: str = "./data/font_cache"
    google_fonts_css_url: str = "https://fonts.googleapis.com/css2"

    # Remote background images
    image_fetch_timeout_secs: float = 15.0

    # Stabilization delays (milliseconds)
    resource_settle_delay_ms: int = 300
    capture_warmup_delay_ms: int = 150

    # Share-sheet limits. Empirical values, revalidate against target platforms.
    share_batch_limit: int = 5
    share_chunk_delay_ms: int = 1000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
