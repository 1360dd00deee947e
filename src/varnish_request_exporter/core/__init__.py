"""Log decoding and metric aggregation core."""
