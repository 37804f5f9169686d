SYS_CONFIG = "sys_config"
GLOBAL_SETTINGS_KEY = "global_settings"
