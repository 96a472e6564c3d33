from .ext import RestResponse
from .rest_client import RestClient
