"""Entry point for ``python -m lodaengine``."""

from lodaengine.main import main

if __name__ == "__main__":
    raise SystemExit(main())
