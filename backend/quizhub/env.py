# Environment loading helpers.
from typing import Optional

from dotenv import load_dotenv


# Load .env values into the process environment without overriding set values.
def load_environment(dotenv_path: Optional[str] = None) -> bool:
    return load_dotenv(dotenv_path=dotenv_path, override=False)
