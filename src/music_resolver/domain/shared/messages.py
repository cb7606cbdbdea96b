"""Centralized message constants for error messages, validation, and user feedback."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Track Validation Errors
    EMPTY_TRACK_ID = "Track ID cannot be empty"

    # Manifest Errors
    MANIFEST_NOT_JSON = "Resolver manifest is not valid JSON: {error}"
    MANIFEST_MISSING_FIELD = "Invalid resolver manifest: missing manifest.{field}"
    MANIFEST_INVALID = "Invalid resolver manifest: {error}"
    MANIFEST_NO_IMPLEMENTATION = "Resolver '{resolver_id}' has no implementation or entry_point"
    MANIFEST_BAD_ENTRY_POINT = "Resolver '{resolver_id}' entry point '{entry_point}' could not be loaded: {error}"
    MANIFEST_NOT_A_PLUGIN = "Resolver '{resolver_id}' entry point does not produce a ResolverPlugin"
    RESOLVER_INIT_FAILED = "Resolver '{resolver_id}' failed to initialize: {error}"

    # Registry Errors
    RESOLVER_BUILTIN = "Built-in resolver '{resolver_id}' cannot be uninstalled"
    ORDER_DUPLICATE_IDS = "Resolver order contains duplicate ids: {ids}"
    ORDER_UNKNOWN_IDS = "Resolver order contains unknown ids: {ids}"

    # Playback Errors
    RECOVERABLE_PLAYBACK = "Playback failed. Track has been re-resolved. Please try playing again."
    NO_ENABLED_RESOLVER = "No enabled resolver can play '{title}'. Try enabling more resolvers."
    RESOLVER_NOT_PLAYABLE = "Resolver '{resolver_id}' is not loaded or not enabled"

    # Settings Errors
    INVALID_DATABASE_URL = "Database URL must start with sqlite://"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Database Lifecycle
    DATABASE_INITIALIZED = "Database initialized at %s"
    DATABASE_CLOSED = "Database manager closed"

    # Flush Job
    FLUSH_JOB_STARTED = "Cache flush job started (every %s min)"
    FLUSH_JOB_STOPPED = "Cache flush job stopped"
    FLUSH_JOB_ALREADY_RUNNING = "Cache flush job is already running"

    # Cache Operations
    CACHE_LOADED_NAMESPACE = "Loaded %d %s entries from cache (%d discarded)"
    CACHE_LOAD_FAILED = "Failed to load cache from store: %r"
    CACHE_FLUSHED = "Cache flushed to persistent storage (%d entries)"
    CACHE_FLUSH_FAILED = "Failed to save cache to store: %r"
    CACHE_PURGED_RESOLVER = "Purged resolver %s from %d cache entries (%d deleted)"
    CACHE_CLEARED = "Cleared %d cache entries"

    # Registry
    RESOLVER_LOADED = "Loaded resolver: %s v%s"
    RESOLVER_REPLACED = "Updated resolver in place: %s v%s"
    RESOLVER_INSTALLED = "Installed resolver: %s"
    RESOLVER_UNINSTALLED = "Uninstalled resolver: %s"
    RESOLVER_LOAD_FAILED = "Failed to load resolver: %s"
    RESOLVER_CLEANUP_FAILED = "Error during cleanup of %s: %r"
    RESOLVER_TOGGLED = "Resolver %s %s"
    RESOLVER_ORDER_UPDATED = "Resolver order updated: %s"
    RESOLVER_URL_PATTERNS = "Registered %d URL pattern(s) for %s"
    RESOLVER_URL_LOOKUP_FAILED = "URL lookup error for %s: %r"
    RESOLVER_SETTINGS_LOADED = "Loaded resolver settings: %d active, %d ordered"
    RESOLVER_SETTINGS_SAVED = "Resolver settings saved"
    RESOLVER_SETTINGS_SAVE_FAILED = "Failed to save resolver settings: %r"
    RESOLVER_SETTINGS_SAVE_DEFERRED = "No running event loop, resolver settings will be saved on the next flush"
    RESOLVER_SETTINGS_LOAD_FAILED = "Failed to load resolver settings: %r"
    SOURCE_HOLDER_PURGED = "Purged resolver %s from %d live track(s)"

    # Resolution
    RESOLVE_CACHE_HIT = "Using cached sources for: %s (age: %dh)"
    RESOLVE_PARTIAL_HIT = "Cache hit for %s, querying %d missing resolver(s): %s"
    RESOLVE_SETTINGS_CHANGED = "Resolver settings changed, re-resolving: %s"
    RESOLVE_STARTED = "Resolving: %s - %s%s"
    RESOLVE_MATCH = "  %s: found match (confidence: %d%%)"
    RESOLVE_QUERY_FAILED = "  %s resolve error: %r"
    RESOLVE_FOUND = "Found %d source(s) for: %s"
    RESOLVE_NOTHING = "No sources found for: %s"
    RESOLVE_BATCH_STARTED = "Starting resolution for %d tracks%s"
    RESOLVE_BATCH_DONE = "Track resolution complete (%d tracks)"
    RESOLVE_BATCH_WAITING = "Queue resolution active, pausing batch before: %s"
    SEARCH_FAILED = "  %s search error: %r"

    # Revalidation
    REVALIDATE_SCHEDULED = "Cache > %dh old for %s, validating in background"
    REVALIDATE_CHANGED = "Sources changed for %s: %s -> %s"
    REVALIDATE_INVALIDATED = "No sources found for %s - cache invalidated"
    REVALIDATE_UNCHANGED = "Sources still valid for %s, refreshing timestamp"
    REVALIDATE_FAILED = "Background validation failed for %s"

    # Queue Arbiter
    QUEUE_RESOLUTION_STARTED = "Queue resolution started for %d track(s)"
    QUEUE_RESOLUTION_FINISHED = "Queue resolution finished: %d track(s) updated"
    QUEUE_RESULT_DISCARDED = "Discarding resolution for %s: no longer queued"
    QUEUE_TRACK_FAILED = "Queue resolution failed for %s: %r"

    # Playback
    PLAYBACK_ON_DEMAND = "No sources for %s, attempting on-demand resolution"
    PLAYBACK_SELECTED = "Selected %s (priority #%d, confidence: %d%%)"
    PLAYBACK_EXTERNAL_PROMPT = "External playback via %s awaiting confirmation"
    PLAYBACK_EXTERNAL_SKIPPED = "External playback via %s not confirmed within %ss, skipping"
    PLAYBACK_STARTED = "Playing %s on %s"
    PLAYBACK_FAILED = "%s playback failed (attempt %d)"
    PLAYBACK_ERROR = "Error playing with %s: %r"
    PLAYBACK_RETRYING = "Retrying %s playback in %ss"
    PLAYBACK_RERESOLVING = "Attempting to re-resolve %s with fresh sources"

    # Application lifecycle
    APP_STARTING = "Starting music resolver ({environment})"
    APP_MANIFESTS_LOADED = "Loaded %d resolver manifest(s) from %s"
    APP_MANIFEST_DIR_MISSING = "Resolver manifest directory %s does not exist"
    APP_SHUTDOWN_STEP_FAILED = "Failed during shutdown step %s: %r"
