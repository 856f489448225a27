"""Core domain package for starwatch.

Core contains deduplication, target resolution, image throttling, and the
poll-cycle orchestrator without any HTTP or chat-backend specific code,
keeping the engine portable.
"""
