import sys
import traceback


def openLogFile( logger, path, **kwargs ):
    '''Add a rotating log file, warning on the console when it cannot be opened.'''
    from .logger import add_log_file

    try:
        add_log_file( path, **kwargs )
    except OSError as e:
        logger.warning( "Could not open log file %s: %s" % ( path, e ) )


def cli(args):
    """
    Command line interface for oauth2-forwarder.

    Args:
        args (list): list of CLI arguments to parse.
    """
    import argparse
    import os
    import threading

    from .constants import DOCKER_HOST_ALIAS, DEFAULT_PROXY_HOST, ENV_DEBUG, ENV_SERVER, ENV_LOG_LEVEL
    from .constants import CAPTURE_TIMEOUT, CLIENT_LOG_BACKUPS, CLIENT_LOG_MAX_BYTES, FORWARDER_START_TIMEOUT, SERVER_LOG_BACKUPS
    from .logger import setup_logging
    from .paths import logFilePath
    from .utils import envFlag

    parser = argparse.ArgumentParser( prog = 'oauth2-forwarder' )
    parser.add_argument( 'action',
                         type = str,
                         help = 'action to perform, currently supported "proxy" (run the host side proxy), "browse" (forward an authorization url from inside the container, usable as BROWSER), "whitelist" (show the domain allow-list), "version"' )

    # Everything after the action name is passed to the action argument parser.
    rootArgs = args[ 1: 2 ]
    actionArgs = args[ 2: ]
    args = parser.parse_args( rootArgs )

    action = args.action.lower()
    if action == 'version':
        from . import __version__
        print( "oauth2-forwarder version %s" % ( __version__, ) )
    elif action == 'proxy':
        from rich.console import Console
        from rich.panel import Panel
        from rich.text import Text

        from .browser import open_browser
        from .callback_capture import CallbackCapture
        from .config import ProxyConfig
        from .proxy import CredentialProxy
        from .whitelist import load_whitelist

        parser = argparse.ArgumentParser( prog = 'oauth2-forwarder proxy' )
        parser.add_argument( '--host',
                             type = str,
                             default = None,
                             help = 'address to listen on (default: %s)' % ( DEFAULT_PROXY_HOST, ) )
        parser.add_argument( '--port',
                             type = int,
                             default = None,
                             help = 'port to listen on (default: a free port)' )
        parser.add_argument( '--ttl',
                             type = float,
                             default = None,
                             dest = 'completion_ttl',
                             help = 'seconds a captured callback waits for the container to report back' )
        parser.add_argument( '--capture-timeout',
                             type = float,
                             default = None,
                             help = 'seconds to wait for the provider to redirect the browser (default: %s); clients need a larger browse --timeout when raising it' % ( CAPTURE_TIMEOUT, ) )
        parser.add_argument( '--passthrough',
                             action = 'store_true',
                             default = None,
                             help = 'open urls that are not OAuth2 requests directly in the browser' )
        parser.add_argument( '--debug',
                             action = 'store_true',
                             default = False,
                             help = 'print debug output' )
        proxyArgs = parser.parse_args( actionArgs )

        overrides = {
            'host' : proxyArgs.host,
            'port' : proxyArgs.port,
            'completion_ttl' : proxyArgs.completion_ttl,
            'capture_timeout' : proxyArgs.capture_timeout,
            'passthrough' : proxyArgs.passthrough,
            'log_level' : 'debug' if proxyArgs.debug else None,
        }
        config = ProxyConfig.load( overrides )
        logger = setup_logging( config.log_level, prefix = 'proxy' )
        openLogFile( logger,
                     logFilePath( 'server' ),
                     level = 'debug' if config.log_level == 'debug' else 'info',
                     prefix = 'proxy',
                     rotate_on_start = True,
                     backup_count = SERVER_LOG_BACKUPS )

        whitelist = load_whitelist()
        if whitelist.enabled:
            logger.info( "Domain whitelist enabled with %d domains from %s" % ( len( whitelist.domains ), whitelist.config_path ) )

        capture = CallbackCapture( open_browser, logger = logger, timeout = config.capture_timeout )
        proxy = CredentialProxy( capture,
                                 host = config.host,
                                 port = config.port,
                                 is_allowed = whitelist.is_allowed,
                                 passthrough = config.passthrough,
                                 open_browser = open_browser,
                                 completion_ttl = config.completion_ttl,
                                 logger = logger )
        port = proxy.start()

        reachableHost = DOCKER_HOST_ALIAS if config.host == DEFAULT_PROXY_HOST else config.host
        instructions = Text()
        instructions.append( "Run the following in your container:\n\n", style = "yellow" )
        instructions.append( '    export %s="%s:%s"\n' % ( ENV_SERVER, reachableHost, port ), style = "bold white" )
        instructions.append( '    export BROWSER=oauth2-forwarder-browser\n', style = "bold white" )
        console = Console()
        console.print( Panel( instructions,
                              title = "[bold cyan]oauth2-forwarder proxy on %s:%s[/bold cyan]" % ( config.host, port ),
                              border_style = "cyan" ) )
        console.print( "Ctrl+c to stop server." )

        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            console.print( "\nStopping..." )
        finally:
            proxy.close()
    elif action == 'browse':
        from .config import parse_server_info
        from .forwarder import Forwarder, CompletionReportError

        parser = argparse.ArgumentParser( prog = 'oauth2-forwarder browse' )
        parser.add_argument( 'url',
                             type = str,
                             nargs = '?',
                             default = None,
                             help = 'authorization url to forward' )
        parser.add_argument( '--server',
                             type = str,
                             default = os.environ.get( ENV_SERVER ),
                             help = 'proxy host:port (default: $%s)' % ( ENV_SERVER, ) )
        parser.add_argument( '--timeout',
                             type = float,
                             default = FORWARDER_START_TIMEOUT,
                             help = 'seconds to wait for the proxy to capture the login, must exceed the proxy capture timeout (default: %s)' % ( FORWARDER_START_TIMEOUT, ) )
        parser.add_argument( '--debug',
                             action = 'store_true',
                             default = False,
                             help = 'print debug output' )
        browseArgs = parser.parse_args( actionArgs )

        level = os.environ.get( ENV_LOG_LEVEL, 'warning' )
        if browseArgs.debug or envFlag( ENV_DEBUG ):
            level = 'debug'
        logger = setup_logging( level, prefix = 'browser' )
        openLogFile( logger,
                     logFilePath( 'client' ),
                     level = 'debug' if level == 'debug' else 'info',
                     prefix = 'browser',
                     max_bytes = CLIENT_LOG_MAX_BYTES,
                     backup_count = CLIENT_LOG_BACKUPS )

        if not browseArgs.url:
            logger.error( "No url argument present" )
            sys.exit( 1 )
        if not browseArgs.server:
            logger.error( "The environment variable %s was not defined" % ( ENV_SERVER, ) )
            sys.exit( 1 )
        if browseArgs.timeout <= 0:
            logger.error( "The timeout must be a positive number of seconds" )
            sys.exit( 1 )

        host, port = parse_server_info( browseArgs.server )
        forwarder = Forwarder( host, port, logger = logger, start_timeout = browseArgs.timeout )
        try:
            result = forwarder.forward( browseArgs.url )
        except CompletionReportError as e:
            logger.error( "Callback delivered as %s but the proxy was not notified: %s" % ( e.result.type, e ) )
            sys.exit( 1 )

        if result.type == 'error':
            logger.error( "Callback delivery failed: %s" % ( result.message, ) )
            sys.exit( 1 )
        logger.debug( "Exiting on success..." )
    elif action == 'whitelist':
        from tabulate import tabulate
        from .whitelist import load_whitelist

        whitelist = load_whitelist()
        print( "Whitelist file: %s" % ( whitelist.config_path, ) )
        if not whitelist.enabled:
            print( "Whitelist disabled, all domains are allowed." )
        else:
            rows = [ [ domain ] for domain in sorted( whitelist.domains ) ]
            print( tabulate( rows, headers = [ 'Allowed domain' ], tablefmt = 'grid' ) )
    else:
        raise Exception( 'invalid action: %s' % ( args.action.lower(), ) )


def browser_main():
    '''Entry point usable as the BROWSER environment variable: oauth2-forwarder-browser <url>.'''
    return main( [ sys.argv[ 0 ], 'browse' ] + sys.argv[ 1: ] )


def main( args = None ):
    args = list( sys.argv if args is None else args )

    debug_mode = '--debug' in args

    try:
        cli( args )
    except SystemExit as e:
        return e.code
    except Exception as e:
        print( "Error:", e, file = sys.stderr )

        if debug_mode:
            print( traceback.format_exc(), file = sys.stderr )

        return 1
    return 0

if __name__ == "__main__":
    sys.exit( main() )
