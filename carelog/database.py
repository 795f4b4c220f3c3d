# carelog/database.py
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    MONGO_URI: str = "mongodb://localhost:27017"
    DB_NAME: str = "carelog"
    LOG_LEVEL: str = "INFO"
    PATIENT_COUNTER: str = "patientCounter"
    PATIENT_ID_PREFIX: str = "p"

settings = Settings()

client = AsyncIOMotorClient(settings.MONGO_URI)
db = client[settings.DB_NAME]
