class StreamerError(Exception):
    status = 500
    message = "Internal Server Error"

    def __init__(self, message=None):
        if message:
            self.message = message
        super().__init__(self.message)


class InvalidMagnetFormat(StreamerError):
    status = 400
    message = "Invalid magnet link."


class MissingMagnet(StreamerError):
    status = 400
    message = "Magnet link is required."


class MissingQuery(StreamerError):
    status = 400
    message = "Query parameter is required."


class NoPlayableFile(StreamerError):
    status = 404
    message = "No playable video file found in torrent."


class RangeNotSatisfiable(StreamerError):
    status = 416
    message = "416 Range Not Satisfiable"

    def __init__(self, total_size, message=None):
        self.total_size = total_size
        super().__init__(message)


class NotHealthy(StreamerError):
    status = 503
    message = "Torrent is not healthy. Try again later."


class MetadataTimeout(StreamerError):
    status = 504
    message = "Timed out waiting for torrent metadata."


class SearchUpstreamError(StreamerError):
    message = "Failed to fetch search results."


class StreamError(StreamerError):
    message = "Stream error."


class AddFetchError(StreamerError):
    message = "Could not add torrent."


class FetchError(StreamerError):
    message = "Torrent failed to load."
