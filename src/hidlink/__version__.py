"""hidlink version information."""

__version__ = "0.3.1"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Initial release: Set_Report write + async interrupt read, retry on
#         timeout, kernel driver detach
# 0.2.0 - Session object replaces module globals, typed errors instead of
#         exit(), start()/poll() for external event loops
# 0.2.1 - Fix descriptor reuse after control write failure (drain the
#         cancellation before re-arming)
# 0.3.0 - Configurable retry bound (RetriesExhausted), JSON config, CLI
#         (detect / send / config)
# 0.3.1 - Interrupt IN endpoint auto-detect from the config descriptor
