from .base import *
from .base import env

DEBUG = env.bool("DEADLYZE_DEBUG", True)
