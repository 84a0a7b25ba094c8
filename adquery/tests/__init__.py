# type: ignore
from django.conf import settings

# Configure Django settings before any test module imports adquery
if not settings.configured:
    settings.configure(
        LDAP_SERVERS={
            "default": {
                "basedn": "DC=example,DC=com",
                "read": {
                    "url": "ldap://dc1.example.com",
                    "user": "CN=svc-reader,OU=Service Accounts,DC=example,DC=com",
                    "password": "secret",
                    "use_starttls": False,
                    "timeout": 5,
                },
            },
        },
        ADQUERY_POLL_INTERVAL=0,
        ADQUERY_DEFAULT_PAGE_SIZE=1000,
    )
