"""
WeylandTavern desktop launcher entrypoint.

This file is the entrypoint users run: `python launcher.py`.
It delegates to the desktop launcher in `launcher_app/launcher.py`.
"""

from launcher_app.launcher import main


if __name__ == "__main__":
    main()
