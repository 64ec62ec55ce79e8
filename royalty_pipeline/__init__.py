"""Royalty pipeline: stream-event tracking, fraud scoring, aggregation and settlement."""
