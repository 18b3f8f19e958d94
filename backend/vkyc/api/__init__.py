# HTTP surface: request schemas and FastAPI dependencies
