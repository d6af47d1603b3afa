import os

class Config:
    PORT = 8010
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("DEBUG", "True").lower() == "true"
    TESTING = False
    SECRET_KEY = os.environ.get("SECRET_KEY", "super-secret-blog-key")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "super-secret-jwt-key")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # SQLite Database Configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///blog_platform.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS settings
    CORS_ALLOWED_ORIGINS = os.environ.get("CORS_ALLOWED_ORIGINS", "*").split(",")

class DevelopmentConfig(Config):
    DEBUG = True
    FLASK_ENV = "development"
    SQLALCHEMY_DATABASE_URI = "sqlite:///blog_platform.db"

class ProductionConfig(Config):
    DEBUG = False
    FLASK_ENV = "production"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///data/blog_platform.db")

class TestingConfig(Config):
    DEBUG = False
    TESTING = True
    FLASK_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"

def get_config():
    env = os.environ.get("FLASK_ENV")
    if env == "production":
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
