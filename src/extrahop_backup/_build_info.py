# Stamped by `extrahop-backup-build`. Empty values mean an unstamped build.
VERSION_SHA = ""
VERSION_DATE = ""
OFFICIAL_BUILD = ""
BUILD_BRANCH = ""
