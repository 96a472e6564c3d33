from .broker import BrokerClient, ConsumerVersionSelector, FetchedPact, PactBrokerClient, publish_results
from .pact_parser import parse_pact
from .sources import BrokerSource, ContractSource, PactFileSource, load_interactions
