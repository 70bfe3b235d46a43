# API module
