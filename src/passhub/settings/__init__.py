# ruff: noqa: F401, F403
from .base import *
from .celery import *
from .ninja import *
from .observability import *
from .unfold import *
from .wallet import *
