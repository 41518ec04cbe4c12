"""Collecta pubsub addresses, namespaces and form field names."""

# Pubsub service and the node every search is multiplexed on
PUBSUB_SERVICE = "search.collecta.com"
PUBSUB_NODE = "search"

# XMPP extension namespaces
NS_PUBSUB = "http://jabber.org/protocol/pubsub"
NS_PUBSUB_EVENT = NS_PUBSUB + "#event"
NS_PUBSUB_SUBSCRIBE_OPTIONS = NS_PUBSUB + "#subscribe_options"
NS_DATAFORMS = "jabber:x:data"
NS_RESULTSET = "http://jabber.org/protocol/rsm"
NS_SHIM = "http://jabber.org/protocol/shim"
NS_ATOM = "http://www.w3.org/2005/Atom"

# Data form FORM_TYPE values
FORM_OPTIONS = "collecta#options"

# Data form field names. The query field name doubles as the SHIM header
# name that marks a notification as a search result.
FIELD_APIKEY = "x-collecta#apikey"
FIELD_QUERY = "x-collecta#query"
FIELD_RATE_LIMIT = "x-collecta#rate_limit"
FIELD_SCORE_THRESHOLD = "x-collecta#score_threshold"

# Number of archived items fetched per subscribe when not configured
DEFAULT_CONTEXT_COUNT = 10
