import os


class ForwarderException( Exception ):
    '''Base exception type used for errors in oauth2-forwarder.'''

    def __init__(self, message, code=None):
        """
        Initialize the exception with a message and an optional status code.

        Args:
            message (str): The error message.
            code (int, optional): HTTP status code associated with the error, if any. Defaults to None.
        """
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigError( ForwarderException ):
    '''Raised when a configuration value cannot be used.'''
    pass


def envFlag( name, default = False ):
    '''Read a boolean flag from the environment.

    Args:
        name (str): name of the environment variable.
        default (bool): value returned when the variable is unset or empty.

    Returns:
        True for "1", "true", "yes" and "on" (any case), False otherwise.
    '''
    value = os.environ.get( name, '' ).strip().lower()
    if '' == value:
        return default
    return value in ( '1', 'true', 'yes', 'on' )
