import logging

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VirtSettings(BaseSettings):
    """Settings shared by the admission webhook and the operator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    namespace: str = Field(default="kubevirt", description="Namespace KubeVirt is installed into")

    # KubeVirt custom resource
    kubevirt_group: str = Field(default="kubevirt.io", description="API group of the KubeVirt CR")
    kubevirt_version: str = Field(default="v1", description="API version of the KubeVirt CR")
    kubevirt_plural: str = Field(default="kubevirts", description="Plural resource name of the KubeVirt CR")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="{time} | {level} | {name}:{function}:{line} | {message}",
        description="Log format string",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings"""
        logger.remove()
        logger.add(
            sink=lambda message: print(message, end=""),
            level=self.log_level,
            format=self.log_format,
        )

        # The kubernetes client logs through the standard library.
        class InterceptHandler(logging.Handler):
            def emit(self, record):
                logger.opt(depth=6, exception=record.exc_info).log(record.levelname, record.getMessage())

        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

        logger.info(f"Logging configured with level: {self.log_level}")
