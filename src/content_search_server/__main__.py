"""Allow `python -m content_search_server`."""

from content_search_server.cli import main

main()
