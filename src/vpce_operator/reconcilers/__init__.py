"""Reconcilers that converge the AWS resources behind a VpcEndpoint."""
