"""Module entrypoint for running VoiceRender as ``python -m voicerender``."""

from __future__ import annotations

from voicerender.cli import main


if __name__ == "__main__":
    main()
