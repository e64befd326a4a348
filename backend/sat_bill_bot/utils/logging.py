import logging
from logging.handlers import RotatingFileHandler
import json
import os
from datetime import datetime, timezone

LOG_FILE = os.environ.get("SAT_BOT_LOG_FILE", "app.log")
LOG_LEVEL = os.environ.get("SAT_BOT_LOG_LEVEL", "INFO")


# Custom JSON Formatter
class JsonFormatter(logging.Formatter):
	def formatTime(self, record, datefmt=None):
		# ISO8601, always UTC
		dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
		return dt.isoformat()

	def format(self, record):
		exclude_attrs = {"args", "asctime", "created", "exc_info", "exc_text", "filename",
						 "id", "levelno", "lineno", "message", "module", "msecs", "funcName", "msg", "pathname",
						 "process", "processName", "relativeCreated", "stack_info", "thread",
						 "threadName", "levelname", "taskName"}

		log_record = {
			"timestamp": self.formatTime(record, self.datefmt),
			"function": record.funcName,
			"message": record.getMessage(),
			"module": record.module,
			"level": record.levelname,
		}

		if record.exc_info:
			log_record["exception"] = self.formatException(record.exc_info)

		# Include all other attributes dynamically
		for attr, value in record.__dict__.items():
			if attr not in exclude_attrs:
				log_record[attr] = value

		return json.dumps(log_record, default=str)


def setup_logger(name):
	logger = logging.getLogger(name)
	logger.setLevel(LOG_LEVEL)

	# Module reloads must not stack handlers
	if logger.handlers:
		return logger

	# Configure streamhandler to stdout
	stream_handler = logging.StreamHandler()
	stream_handler.setFormatter(JsonFormatter())
	logger.addHandler(stream_handler)

	# Configure rotating handler to file
	rotating_handler = RotatingFileHandler(LOG_FILE, maxBytes=2*1024*1024, backupCount=10, delay=True)
	rotating_handler.setFormatter(JsonFormatter())
	logger.addHandler(rotating_handler)

	return logger
