"""Azure Service Bus adapters implementing the core ports."""
