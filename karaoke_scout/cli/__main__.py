"""Allow ``python -m karaoke_scout.cli`` execution."""

from karaoke_scout.cli.extract import main

main()
