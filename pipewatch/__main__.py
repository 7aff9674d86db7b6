"""Entry point: python -m pipewatch"""

from .cli import main

if __name__ == "__main__":
    main()
