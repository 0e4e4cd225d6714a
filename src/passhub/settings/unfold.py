"""Django Unfold admin configuration."""

from django.urls import reverse_lazy
from django.utils.translation import gettext_lazy as _

from .base import VERSION

UNFOLD = {
    "SITE_TITLE": f"passhub v{VERSION} Admin",
    "SITE_HEADER": f"passhub v{VERSION} Administration",
    "SITE_URL": "/",
    "SHOW_HISTORY": False,
    "SHOW_VIEW_ON_SITE": False,
    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": False,
        "navigation": [
            {
                "title": _("Wallet Passes"),
                "separator": True,
                "items": [
                    {
                        "title": _("Passes"),
                        "icon": "wallet",
                        "link": reverse_lazy("admin:wallet_pass_changelist"),
                    },
                    {
                        "title": _("Devices"),
                        "icon": "smartphone",
                        "link": reverse_lazy("admin:wallet_walletpassdevice_changelist"),
                    },
                    {
                        "title": _("Registrations"),
                        "icon": "notifications",
                        "link": reverse_lazy("admin:wallet_registration_changelist"),
                    },
                ],
            },
        ],
    },
}
