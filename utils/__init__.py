# Utils package - logging and configuration helpers shared by the app and services
