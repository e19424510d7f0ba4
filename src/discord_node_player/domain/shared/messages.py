"""Centralized message constants for error messages and log templates."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # ID Validation Errors
    INVALID_SNOWFLAKE = "Discord snowflake ID must be positive"
    SNOWFLAKE_TOO_LARGE = "Discord snowflake ID exceeds maximum value (2^64)"
    GUILD_ID_REQUIRED = "Expected guild_id to be defined"
    TEXT_CHANNEL_ID_REQUIRED = "Expected text_channel_id to be defined"
    VOICE_CHANNEL_ID_REQUIRED = "Expected voice_channel_id to be defined"

    # Field Validation Errors (templates)
    FIELD_MUST_BE_POSITIVE = "{field_name} must be positive"
    FIELD_CANNOT_BE_EMPTY = "{field_name} cannot be empty"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"

    # Configuration Errors
    CONNECTION_TIMEOUT_NOT_BELOW_RETRY_DELAY = (
        "Node connection timeout ({timeout}s) must be less than the reconnect retry delay ({delay}s)"
    )
    NO_NODES_CONFIGURED = "At least 1 node must be defined"
    DEFAULT_SOURCE_NOT_ENABLED = "Default source must be defined in enabled sources"
    SPOTIFY_AUTH_INCOMPLETE = "Spotify auth is not properly defined"

    # Node Errors
    NODE_CANNOT_CONNECT = (
        "Cannot initiate a connection when the node isn't in a disconnected or reconnecting state"
    )
    NODE_CONNECT_TIMEOUT = "Timed out while connecting to the node"
    NODE_HANDSHAKE_FAILED = "Failed to connect to the node: {error}"
    NODE_SEND_FAILED = "Failed to send payload to the node: {error}"
    NODE_REQUEST_FAILED = "Request to {route} failed: {error}"
    NODE_RECONNECT_EXHAUSTED = "Unable to reconnect after {attempts} attempts"
    NODE_CONNECT_EXHAUSTED = "Unable to connect after {attempts} attempts"
    NODE_UNEXPECTED_OP = 'Received unexpected op "{op}"'
    NODE_MALFORMED_FRAME = "Received malformed frame: {error}"
    NO_NODES_AVAILABLE = "No available nodes"
    NO_NODES_FOR_PLAYER = "No available nodes to bind the player to"
    NO_NODES_FOR_SEARCH = "No available nodes to perform a search"
    NO_NODES_FOR_DECODE = "No available nodes to decode the track"
    NO_SEARCH_RESPONSE = "No search response data"
    NO_DECODE_RESPONSE = "No decode response data"

    # Player Errors
    PLAYER_ALREADY_EXISTS = "A player already exists for that guild"
    PLAYER_CANNOT_CONNECT = "Cannot initiate a connection when the player isn't in a disconnected state"
    PLAYER_CONNECT_TIMEOUT = "Timed out while connecting to the voice channel"
    PLAYER_DESTROYED_WHILE_CONNECTING = (
        "Failed to connect to the voice channel, Player was destroyed: {reason}"
    )
    PLAYER_STAGE_NO_PERMISSION = (
        "Failed to connect to the stage channel, the bot does not have permissions "
        "to request to or become a speaker"
    )
    PLAYER_INACTIVE = (
        "Cannot {operation} when the player isn't in a connected, paused, or playing state"
    )
    PLAYER_ADVANCE_UNRESOLVED = (
        "Unable to get Track from new queue position while advancing the queue"
    )
    INVALID_INDEX = "Invalid index"
    INVALID_TRACK = "Invalid track"
    INVALID_TRACK_AT_ZERO = "Invalid track at new queue position 0"
    VOLUME_OUT_OF_RANGE = "Volume must be between 0 and 1000"
    NEGATIVE_POSITION = "Position must be greater than 0"

    # Search Errors
    SOURCE_NOT_ENABLED = "The provided source is not enabled"
    NO_RESULTS_FOUND = "No results found"
    NO_SPOTIFY_TRACKS = "No spotify tracks found"

    # Spotify Errors
    SPOTIFY_AUTH_INVALID = "Invalid Spotify authentication"
    SPOTIFY_REQUEST_FAILED = "Spotify request to {url} failed with status {status}"
    SPOTIFY_NOT_CONFIGURED = "Spotify auth must be defined"

    # Discord adapter
    GUILD_NOT_FOUND = "Guild {guild_id} not found"
    CHANNEL_NOT_VOICE = "Channel {channel_id} is not a voice channel"
    HOST_USER_UNAVAILABLE = "The Discord client is not logged in yet"

    # Entry point
    USER_ID_REQUIRED = "USER_ID environment variable is required"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Node lifecycle
    NODE_CREATED = "[NODE-%s] Created for %s"
    NODE_CONNECTING = "[NODE-%s] Connecting to %s"
    NODE_CONNECTED = "[NODE-%s] Connected"
    NODE_CONNECT_FAILED = "[NODE-%s] Connection attempt failed: %s"
    NODE_DISCONNECTED = "[NODE-%s] Disconnected (code=%s, reason=%s)"
    NODE_RECONNECTING = "[NODE-%s] Reconnecting (attempt %s)"
    NODE_RECONNECT_EXHAUSTED = "[NODE-%s] Giving up after %s reconnect attempts"
    NODE_DESTROYED = "[NODE-%s] Destroyed: %s"
    NODE_SEND = "[NODE-%s] -> %s"
    NODE_RECEIVED = "[NODE-%s] <- %s"
    NODE_UNEXPECTED_OP = "[NODE-%s] Unexpected op %r"
    NODE_MALFORMED_FRAME = "[NODE-%s] Malformed frame: %r"
    NODE_REQUEST = "[NODE-%s] %s %s"
    NODE_REQUEST_TIMEOUT = "[NODE-%s] Request %s %s timed out"
    NODE_REQUEST_FAILED = "[NODE-%s] Request %s %s failed: %r"
    NODE_STATS_UPDATED = "[NODE-%s] Stats: players=%s playing=%s load=%.3f"
    NODE_NO_SUBSCRIBER = "[NODE-%s] No player subscribed for guild %s"
    NODE_HANDLER_ERROR = "[NODE-%s] Player handler failed for guild %s"

    # Player lifecycle
    PLAYER_CREATED = "Player created for guild %s on node %s"
    PLAYER_CONNECTING = "Player for guild %s joining voice channel %s"
    PLAYER_CONNECTED = "Player for guild %s connected to voice channel %s"
    PLAYER_CONNECT_TIMEOUT = "Player for guild %s timed out joining voice channel %s"
    PLAYER_DESTROYED = "Player for guild %s destroyed: %s"
    PLAYER_LEAVE_FAILED = "Failed to leave voice in guild %s: %r"
    PLAYER_DESTROY_FRAME_FAILED = "Failed to send destroy frame for guild %s: %r"
    PLAYER_MOVED = "Player for guild %s moved from %s to %s"
    PLAYER_STAGE_SPEAKER = "Player for guild %s became a stage speaker"
    PLAYER_STAGE_REQUEST = "Player for guild %s requested to speak"
    PLAYER_STAGE_RENEGOTIATE_FAILED = "Failed to renegotiate stage speaker in guild %s: %r"
    PLAYER_ADVANCE_FAILED = "Queue advance failed in guild %s at index %s: %r"
    PLAYER_QUEUE_EXHAUSTED = "Queue exhausted in guild %s"
    PLAYER_DECODE_FAILED = "Failed to decode event track in guild %s: %r"
    PLAYER_STOP_FAILED = "Failed to stop stuck track in guild %s: %r"

    # Playback Operations
    PLAYBACK_STARTED = "Playing '%s' in guild %s"
    PLAYBACK_STOPPED = "Stopped playback in guild %s"
    PLAYBACK_PAUSED = "Paused playback in guild %s: %s"
    PLAYBACK_RESUMED = "Resumed playback in guild %s: %s"
    PLAYBACK_TRACK_END = "Track ended in guild %s: %s"
    PLAYBACK_TRACK_STUCK = "Track stuck in guild %s after %sms"
    PLAYBACK_TRACK_EXCEPTION = "Track exception in guild %s: %s"

    # Voice routing
    VOICE_SERVER_FORWARD_FAILED = "Failed to forward voice server update for guild %s: %r"
    VOICE_UPDATE_NO_PLAYER = "Ignoring voice update for guild %s without a player"
    VOICE_SESSION_ID_MISSING = "Voice server update for guild %s has no session id yet"

    # Search
    SEARCH_STARTED = "Searching %r (source=%s) on node %s"
    SEARCH_SPOTIFY = "Resolving Spotify %s %s"
    SEARCH_RESOLVED = "Resolved %r to '%s' by %s"
    SEARCH_ENTRY_SKIPPED = "Skipping search entry without a track handle: %r"

    # Spotify credentials
    SPOTIFY_TOKEN_RENEWED = "Spotify token renewed, next refresh in %.0fs"
    SPOTIFY_TOKEN_FAILED = "Spotify token renewal failed: %r"
    SPOTIFY_LOOP_STARTED = "Spotify credential loop started"
    SPOTIFY_LOOP_STOPPED = "Spotify credential loop stopped"

    # Discord adapter
    GUILD_NOT_FOUND = "Guild %s not found"
    CHANNEL_NOT_VOICE = "Channel %s is not a voice channel"
    VOICE_JOIN_REQUESTED = "Voice join requested for guild %s channel %s"
    VOICE_LEAVE_REQUESTED = "Voice leave requested for guild %s"
    VOICE_CALLBACK_ERROR = "Voice update callback failed for guild %s"

    # Manager
    MANAGER_CONNECTING_NODES = "Connecting %d nodes"
    MANAGER_NODE_CONNECT_GAVE_UP = "[NODE-%s] Unable to connect after %s attempts"
    MANAGER_CLOSED = "Session manager closed"

    # Entry point
    CHECK_STARTING = "Checking %d node(s) (environment=%s)"
    CHECK_NODE_OK = "[NODE-%s] %s:%s connected, players=%s, load=%.3f"
    CHECK_NODE_FAILED = "[NODE-%s] %s:%s unreachable: %s"
    CHECK_FATAL_ERROR = "Fatal error during health check: %r"
