from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

# Load dotenv files early so settings and fixtures read the test environment
TEST_ROOT = Path(__file__).resolve().parent
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)
