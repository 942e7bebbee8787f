from weather_relay.client.reconnector import ClientReconnector, ClientState, ReconnectState

__all__ = ["ClientReconnector", "ClientState", "ReconnectState"]
