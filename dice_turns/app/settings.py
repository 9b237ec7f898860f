from dice_detection.app.config.settings import DetectionSettings


class ServiceSettings(DetectionSettings):
    load_models_on_startup: bool = True


def get_settings() -> ServiceSettings:
    return ServiceSettings()
