import os


BASE_URL = os.environ.get("BACKEND_URL", "").rstrip("/")

DEFAULT_PASSWORD = os.environ.get("TEST_DEFAULT_PASSWORD", "123456")

ROLE_USERNAMES = {
    "manager": os.environ.get("TEST_MANAGER_USERNAME", "admin"),
    "supervisor": os.environ.get("TEST_SUPERVISOR_USERNAME", "e1"),
}

ROLE_PASSWORDS = {
    "manager": os.environ.get("TEST_MANAGER_PASSWORD", DEFAULT_PASSWORD),
    "supervisor": os.environ.get("TEST_SUPERVISOR_PASSWORD", DEFAULT_PASSWORD),
}


def get_credentials(role: str) -> dict:
    username = ROLE_USERNAMES.get(role)
    password = ROLE_PASSWORDS.get(role, DEFAULT_PASSWORD)
    return {"username": username, "password": password}
