"""
OS-aware location of the configuration and log directories.

    Linux:   $XDG_CONFIG_HOME/oauth2-forwarder/ (default ~/.config/oauth2-forwarder/)
    macOS:   ~/Library/Application Support/oauth2-forwarder/
    Windows: %LOCALAPPDATA%\\oauth2-forwarder\\

The legacy ~/.oauth2-forwarder/ directory is still honoured when it exists
and the platform directory does not. OAUTH2_FORWARDER_CONFIG_DIR overrides
everything.

Log files go to a separate, per-platform log directory:

    Linux:   $XDG_STATE_HOME/oauth2-forwarder/ (default ~/.local/state/oauth2-forwarder/)
    macOS:   ~/Library/Logs/oauth2-forwarder/
    Windows: %LOCALAPPDATA%\\oauth2-forwarder\\logs\\

OAUTH2_FORWARDER_LOG_DIR overrides it.
"""

import os
import sys

from .constants import APP_NAME, CONFIG_FILE, ENV_CONFIG_DIR, ENV_LOG_DIR, LEGACY_CONFIG_DIR, LOG_FILE_TEMPLATE, WHITELIST_FILE


def platformConfigDir( platform = None ):
    platform = platform if platform is not None else sys.platform
    home = os.path.expanduser( '~' )

    if platform == 'darwin':
        return os.path.join( home, 'Library', 'Application Support', APP_NAME )
    if platform.startswith( 'win' ):
        localAppData = os.environ.get( 'LOCALAPPDATA' ) or os.path.join( home, 'AppData', 'Local' )
        return os.path.join( localAppData, APP_NAME )

    xdgConfigHome = os.environ.get( 'XDG_CONFIG_HOME' ) or os.path.join( home, '.config' )
    return os.path.join( xdgConfigHome, APP_NAME )


def configDir( platform = None ):
    '''Get the directory holding config.yaml and whitelist.json.

    Returns:
        absolute path of the directory, which may not exist.
    '''
    override = os.environ.get( ENV_CONFIG_DIR )
    if override:
        return os.path.expanduser( override )

    preferred = platformConfigDir( platform )
    legacy = os.path.expanduser( LEGACY_CONFIG_DIR )
    if not os.path.isdir( preferred ) and os.path.isdir( legacy ):
        return legacy
    return preferred


def configFilePath():
    return os.path.join( configDir(), CONFIG_FILE )


def whitelistFilePath():
    return os.path.join( configDir(), WHITELIST_FILE )


def logDir( platform = None ):
    override = os.environ.get( ENV_LOG_DIR )
    if override:
        return os.path.expanduser( override )

    platform = platform if platform is not None else sys.platform
    home = os.path.expanduser( '~' )

    if platform == 'darwin':
        return os.path.join( home, 'Library', 'Logs', APP_NAME )
    if platform.startswith( 'win' ):
        localAppData = os.environ.get( 'LOCALAPPDATA' ) or os.path.join( home, 'AppData', 'Local' )
        return os.path.join( localAppData, APP_NAME, 'logs' )

    xdgStateHome = os.environ.get( 'XDG_STATE_HOME' ) or os.path.join( home, '.local', 'state' )
    return os.path.join( xdgStateHome, APP_NAME )


def logFilePath( component, platform = None ):
    '''Get the log file of a component, "server" or "client".'''
    return os.path.join( logDir( platform ), LOG_FILE_TEMPLATE % ( component, ) )
