"""
Library Mirror - Content Archive

Architecture:
    strategies.py - Ordered selector fallbacks for unstable page structure
    audio.py      - Per-chapter capture of audio URLs from network traffic
    walker.py     - Chapter-by-chapter traversal of the reader
    fetcher.py    - Byte-exact downloads of covers and audio
    archiver.py   - Builds and writes one bundle per book
"""
