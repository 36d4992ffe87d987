from enum import Enum


class ItemType(str, Enum):
    DICH = "dich"
    GRADED = "graded"
    GPCM = "gpcm"
    NOMINAL = "nominal"
    NESTLOGIT = "nestlogit"
    IDEAL = "ideal"
    PARTCOMP = "partcomp"
