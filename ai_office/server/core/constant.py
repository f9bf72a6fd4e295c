PROJECT_NAME = "AI Office"
API_V1_STR = "/api/v1"
