from ninja_extra.throttling import AnonRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    scope = "anon"


class DeviceLogThrottle(AnonRateThrottle):
    rate = "100/min"
