# config.py
# Client configuration from the environment (.env is honoured).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from agent_transcript.models import Identity

load_dotenv()

DEFAULT_BASE_URL = "http://localhost:8000"


class ClientConfig(BaseModel):
    """Where the agent API lives and who is calling it."""

    base_url: str = Field(default=DEFAULT_BASE_URL, description="Agent API root URL.")
    user_id: str = Field(default="anonymous", description="Caller identity sent as the bearer token.")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds.")
    max_iterations: int = Field(default=10, ge=1, description="Reasoning cycles per query.")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Build a config from AGENT_API_URL, AGENT_USER_ID, AGENT_TIMEOUT and
        AGENT_MAX_ITERATIONS. Unset variables keep their defaults.
        """
        values = {
            "base_url": os.getenv("AGENT_API_URL"),
            "user_id": os.getenv("AGENT_USER_ID"),
            "timeout": os.getenv("AGENT_TIMEOUT"),
            "max_iterations": os.getenv("AGENT_MAX_ITERATIONS"),
        }
        return cls.model_validate({key: value for key, value in values.items() if value})

    @property
    def identity(self) -> Identity:
        return Identity(user_id=self.user_id)
