from weather_relay.logging.logger import connection_id_ctx, get_logger, new_connection_id

__all__ = ["get_logger", "connection_id_ctx", "new_connection_id"]
