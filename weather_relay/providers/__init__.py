from weather_relay.providers.openweather import UpstreamFetchError, WeatherProvider

__all__ = ["WeatherProvider", "UpstreamFetchError"]
