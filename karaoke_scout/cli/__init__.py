# =============================================================================
# karaoke_scout/cli/__init__.py - Command-line interface
# =============================================================================
#
# One command, ``extract``: takes page, photo and group-feed URLs (or local
# image files), runs a full extraction, and prints the run summary or the
# complete run result as JSON.
#
#   python -m karaoke_scout https://example.com/karaoke-nights
#   python -m karaoke_scout https://www.facebook.com/groups/123 --session fb --json
#
# Logs go to stderr so stdout carries only the report.
# =============================================================================

"""Command-line entry points for karaoke-scout."""
