from decouple import config

NINJA_EXTRA = {
    "THROTTLE_RATES": {
        "anon": config("ANON_THROTTLE_RATE", default="1000/hour"),
    },
    "NUM_PROXIES": None,
}
