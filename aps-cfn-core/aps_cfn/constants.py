# strings that are evaluated as boolean values in environment variables
TRUE_STRINGS = ("1", "true", "True")
FALSE_STRINGS = ("0", "false", "False")

# log levels accepted in APS_LOG
LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "warning")
APS_LOG_TRACE = "trace"
TRACE_LOG_LEVELS = [APS_LOG_TRACE]

# boto service name of Amazon Managed Service for Prometheus
APS_SERVICE_NAME = "amp"

# response headers used to correlate failed remote calls
REQUEST_ID_HEADER = "x-amzn-RequestId"
XRAY_TRACE_ID_HEADER = "X-Amzn-Trace-Id"
