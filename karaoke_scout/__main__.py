"""Allow ``python -m karaoke_scout`` execution."""

from karaoke_scout.cli.extract import main

main()
