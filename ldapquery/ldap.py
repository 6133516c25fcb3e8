# Re-exported here so that tests can patch python-ldap for just this package.
# python-ldap-faker patches ``<module>.ldap.initialize`` for each module listed
# in ``ldap_modules``.
import ldap
from ldap import *  # noqa: F403

__version__ = ldap.__version__
