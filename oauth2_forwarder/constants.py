import os

# Host the proxy listens on by default. Containers reach it through the
# runtime's host alias (see DOCKER_HOST_ALIAS).
DEFAULT_PROXY_HOST = '127.0.0.1'
DOCKER_HOST_ALIAS = 'host.docker.internal'

# Loopback literals used by the callback listener and the redirect resolver.
IPV4_LOOPBACK = '127.0.0.1'
IPV6_LOOPBACK = '[::1]'

# Path on the proxy that receives completion reports. Every other path starts a flow.
COMPLETION_PATH = '/complete'

# Callback capture and completion timers.
CAPTURE_TIMEOUT = 300  # 5 minutes
COMPLETION_TTL = 300  # 5 minutes

# Redirect resolver limits.
RESOLVER_REQUEST_TIMEOUT = 30
MAX_REDIRECTS = 10

# The start call blocks while the user logs in, so it must outlive the capture timeout.
FORWARDER_START_TIMEOUT = CAPTURE_TIMEOUT + 30
FORWARDER_COMPLETE_TIMEOUT = 30

# Port used when a loopback redirect_uri does not specify one.
DEFAULT_HTTP_PORT = 80

APP_NAME = 'oauth2-forwarder'
LEGACY_CONFIG_DIR = os.path.join( '~', '.oauth2-forwarder' )
CONFIG_FILE = 'config.yaml'
WHITELIST_FILE = 'whitelist.json'

# Environment variables.
ENV_SERVER = 'OAUTH2_FORWARDER_SERVER'
ENV_PORT = 'OAUTH2_FORWARDER_PORT'
ENV_DEBUG = 'OAUTH2_FORWARDER_DEBUG'
ENV_LOG_LEVEL = 'OAUTH2_FORWARDER_LOGLEVEL'
ENV_PASSTHROUGH = 'OAUTH2_FORWARDER_PASSTHROUGH'
ENV_TTL = 'OAUTH2_FORWARDER_TTL'
ENV_CONFIG_DIR = 'OAUTH2_FORWARDER_CONFIG_DIR'
ENV_LOG_DIR = 'OAUTH2_FORWARDER_LOG_DIR'

# Log files, "o2f-server.log" for the proxy and "o2f-client.log" for browse.
LOG_FILE_TEMPLATE = 'o2f-%s.log'
SERVER_LOG_BACKUPS = 5
CLIENT_LOG_BACKUPS = 3
CLIENT_LOG_MAX_BYTES = 5 * 1024 * 1024
