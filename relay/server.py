import sys

from common.errors import ConfigError
from common.config import load_config
from common.log import log
from common.syslog import LOG_ERROR
from relay.listener import Listener

USAGE = "Usage: python -m relay.server <PORT> <CONFIG_FILE>"


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print(USAGE)
        return 1

    try:
        port = int(args[0])
        config = load_config(args[1], port)
    except ValueError:
        print(f"Invalid port: {args[0]!r}")
        print(USAGE)
        return 1
    except ConfigError as e:
        log("relay", "server", "STARTUP_FAIL", level="ERROR", error=f'"{e}"')
        return 1

    listener = Listener(config)
    try:
        listener.open()
    except OSError as e:
        log("relay", "server", "STARTUP_FAIL", level="ERROR", port=port, error=f'"{e}"')
        LOG_ERROR("STARTUP_FAIL", event="STARTUP_FAIL", port=port, error=e)
        return 1

    print(f"[relay] Listening on port {listener.port}, "
          f"{len(config.endpoints)} downstream(s)")
    try:
        listener.serve_forever()
    except KeyboardInterrupt:
        log("relay", "server", "SHUTDOWN")
    finally:
        listener.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
