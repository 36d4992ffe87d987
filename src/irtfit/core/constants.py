MISSING_VALUE = -1
