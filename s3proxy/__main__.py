"""Entry point for ``python -m s3proxy``."""
from s3proxy.api.main import run

if __name__ == "__main__":
    run()
