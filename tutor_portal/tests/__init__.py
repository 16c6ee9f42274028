import os

# Keep the suite on in-memory backends with cheap password hashing.
os.environ.setdefault("USE_IN_MEMORY_BACKENDS", "true")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
