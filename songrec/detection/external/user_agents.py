"""Android client user agents sent with recognition requests."""

import random

USER_AGENTS = [
    "Dalvik/2.1.0 (Linux; U; Android 5.0.2; VS980 4G Build/LRX22G)",
    "Dalvik/1.6.0 (Linux; U; Android 4.4.2; SM-T210 Build/KOT49H)",
    "Dalvik/2.1.0 (Linux; U; Android 5.1.1; SM-P905V Build/LMY47X)",
    "Dalvik/1.6.0 (Linux; U; Android 4.4.4; Vodafone Smart Tab 4G Build/KTU84P)",
    "Dalvik/2.1.0 (Linux; U; Android 5.0.2; SM-G920F Build/LRX22G)",
    "Dalvik/2.1.0 (Linux; U; Android 6.0.1; SM-G900F Build/MMB29M)",
    "Dalvik/2.1.0 (Linux; U; Android 6.0; Nexus 5 Build/MRA58N)",
    "Dalvik/2.1.0 (Linux; U; Android 7.0; SM-G930F Build/NRD90M)",
    "Dalvik/2.1.0 (Linux; U; Android 7.1.1; Pixel Build/NMF26O)",
    "Dalvik/2.1.0 (Linux; U; Android 8.0.0; SM-G950F Build/R16NW)",
    "Dalvik/2.1.0 (Linux; U; Android 8.1.0; Nexus 5X Build/OPM7.181205.001)",
    "Dalvik/2.1.0 (Linux; U; Android 9; Pixel 2 Build/PQ3A.190801.002)",
    "Dalvik/2.1.0 (Linux; U; Android 10; SM-A505F Build/QP1A.190711.020)",
    "Dalvik/2.1.0 (Linux; U; Android 11; Pixel 4a Build/RQ3A.211001.001)",
]


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)
