"""
Tests package for Skyview

This package contains all unit and integration tests.

Test organization:
- test_models.py: Parsing getPostThread payloads into ThreadNode trees
- test_urls.py: Post URL parsing and handle resolution
- test_thread_cache.py: Per-request cache, merging and fetch coalescing
- test_thread_loader.py: Root resolution, branch completion, load_thread
- test_views.py: tree / embed / unroll projections
- test_bluesky_client.py: atproto-backed source and bot client
- test_mention_bot.py: Mention commands and the polling bot
- test_server.py: Meta tags, oEmbed and thread JSON endpoints
- test_config.py: Configuration loading
- test_cli.py: Command line parsing and the fetch subcommand
- conftest.py: Shared fixtures and the FakeThreadSource test double
"""

__version__ = "1.0.0"
