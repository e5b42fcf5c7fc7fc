"""Shared DynamoDB utilities.

This package centralizes:
- boto3 client configuration resolved from the environment
- AttributeValue marshaling
- update/condition expression building
- typed, expressive errors (conditional failures reported as values)
- deadline/cancellation handling for round trips
- cursor pagination token encoding/decoding

"""
