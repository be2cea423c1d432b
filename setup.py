from setuptools import setup

__version__ = "1.2.0"
__author__ = "oauth2-forwarder contributors"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2024 oauth2-forwarder contributors"

setup( name = 'oauth2-forwarder',
       version = __version__,
       description = 'Relay OAuth2 loopback redirects between a container and the host browser',
       author = __author__,
       license = __license__,
       packages = [ 'oauth2_forwarder' ],
       zip_safe = True,
       python_requires = '>=3.8',
       install_requires = [ 'requests', 'pyyaml', 'tabulate', 'termcolor', 'rich' ],
       extras_require = {
           'test': [ 'pytest' ],
       },
       long_description = 'Forwards OAuth2 authorization requests from containers and remote sessions to a browser on the host, and relays the loopback callback back to the waiting application.',
       entry_points = {
           'console_scripts': [
               'oauth2-forwarder=oauth2_forwarder.__main__:main',
               'oauth2-forwarder-browser=oauth2_forwarder.__main__:browser_main',
           ],
       },
)
